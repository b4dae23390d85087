from cascos import create_app

app = create_app()
