from app.orghub import create_app

app = create_app()
