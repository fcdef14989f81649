# Overview: WSGI entry point; `flask --app novapos.wsgi run` or any WSGI server.

from novapos import create_app

app = create_app()
