from selfcheckout import create_app

app = create_app()
