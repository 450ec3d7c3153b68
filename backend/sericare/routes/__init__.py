"""
SeriCare Backend — API Routes Package
======================================

Route Inventory:
    - auth.py:    POST /auth/signup, POST /auth/login, GET /auth/me
    - upload.py:  POST /upload             (authenticated image submission)
                  GET  /upload/history     (owner's uploads, paginated)
                  GET  /upload/stats       (owner's per-label statistics)
                  GET  /uploads/{file}     (stored image files)
    - health.py:  GET  /health, GET /

Routes stay thin: pull data out of the request, call one service, wrap the
result in the {success, message, data} envelope. Errors propagate to the
handlers in main.py.
"""
