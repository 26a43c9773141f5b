"""
TravelDiary Backend: API Routes Package
========================================

Route Inventory:
    - entries.py:  /api/entries CRUD, share and unshare (auth when enabled)
    - shared.py:   GET /api/shared/{shareId}             (always public)
    - images.py:   POST /api/images                      (auth when enabled)
    - health.py:   GET /health                           (always public)

Routes stay thin: they pull values out of the request, call a service and
shape the response. Validation and storage rules live in the services.
"""
