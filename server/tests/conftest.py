import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-payments")
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.test")
os.environ.setdefault("SUPABASE_KEY", "anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")
os.environ.setdefault("SENDGRID_API_KEY", "")
