from services.uploads.main import build_app

app = build_app()
