from app.ecclesia import create_app

app = create_app()
