"""
Web Server Gateway Interface (WSGI) entry point

    gunicorn --bind=0.0.0.0:8080 --log-level=info wsgi:app
"""
from promo_admin import create_app

app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8080)
