# Overview: WSGI entry point; also the FLASK_APP target for the CLI commands.

from tierstock import create_app

app = create_app()
