from paydesk import create_app

app = create_app()
