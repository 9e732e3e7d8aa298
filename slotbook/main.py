from slotbook.api import create_app

app = create_app()
