from gymoffice import create_app

app = create_app()
