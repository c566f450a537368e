from functools import lru_cache

from school_payments.db.supabase import SupabaseQueries, get_supabase_client
from school_payments.services.email_service import EmailService
from school_payments.services.storage_service import BlobStorage


def get_db() -> SupabaseQueries:
    """
    Dependency providing the query helper for a request.
    """
    return SupabaseQueries(get_supabase_client())


def get_storage() -> BlobStorage:
    """
    Dependency providing the receipt/file blob storage.
    """
    return BlobStorage()


@lru_cache()
def get_email_service() -> EmailService:
    return EmailService()
