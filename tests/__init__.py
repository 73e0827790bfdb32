"""Test package for chat-relay."""
from dotenv import load_dotenv, find_dotenv

# pick up MONGODB_CONNECTION from a local .env if there is one
load_dotenv(find_dotenv(usecwd=True))
