import os

# Keep test runs off the on-disk default database.
os.environ.setdefault("FINTRACK_DATABASE_URL", "sqlite://")
os.environ.setdefault("FINTRACK_TIMEZONE", "UTC")
