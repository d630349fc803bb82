# backend/wsgi.py
from catering import create_app

app = create_app()
