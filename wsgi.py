"""WSGI entry point (e.g., gunicorn -k gthread wsgi:app)."""
from app import create_app
from extensions import socketio

# Expose the Flask application for WSGI servers.
app = create_app()


if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=5000, use_reloader=False, allow_unsafe_werkzeug=True)
