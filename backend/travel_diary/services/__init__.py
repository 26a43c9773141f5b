"""
TravelDiary Backend: Services Layer
====================================

What:  Business rules between the routes (HTTP) and the repositories (storage).

Service Inventory:
    - EntryService:        validation, defaults, sharing rules for entries
    - ImageService:        Pillow normalization to a bounded JPEG data URL
    - AuthService:         bearer token verification (abstract)
    - SupabaseAuthService: AuthService backed by Supabase's /auth/v1/user

Services never see a Request object, so they are tested directly without
an HTTP client.
"""
