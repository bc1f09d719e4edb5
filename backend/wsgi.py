# Overview: WSGI entrypoint; also the FLASK_APP target for the CLI groups.

from app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8080)
