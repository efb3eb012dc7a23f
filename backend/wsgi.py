# backend/wsgi.py
from nursery import create_app

app = create_app()
