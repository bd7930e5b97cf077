# Overview: WSGI entrypoint (FLASK_APP=wsgi.py, gunicorn wsgi:app).

from chairbook import create_app

app = create_app()
