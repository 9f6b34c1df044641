"""Local development entry point.

Usage:
    python run.py

Reads PORT from the environment (default 3002, the port the frontend
expects in dev).
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from relay import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", 3002)))
