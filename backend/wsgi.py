# backend/wsgi.py
# Entry point for `flask --app wsgi run` and WSGI servers.
from app import create_app

app = create_app()
