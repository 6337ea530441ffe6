from api.routes import app

# Vercel's Python runtime serves the WSGI ``app`` exported here
__all__ = ['app']
