import os
from dotenv import load_dotenv

load_dotenv()

from llmboost_billing import create_app

config = os.getenv("FLASK_CONFIG", "production")

app = create_app(config)
