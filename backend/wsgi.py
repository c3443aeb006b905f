# backend/wsgi.py
from estimate_desk import create_app

app = create_app()
