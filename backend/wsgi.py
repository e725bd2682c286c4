# backend/wsgi.py
from passpilot import create_app

app = create_app()
