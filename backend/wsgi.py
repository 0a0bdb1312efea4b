# backend/wsgi.py
from stockengine import create_app

app = create_app()
