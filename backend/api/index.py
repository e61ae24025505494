"""
Vercel Serverless Entry Point for the Inteligencia generation API
Using Mangum for ASGI to AWS Lambda adapter
"""

import os
import sys

# Make the inteligencia package importable from the function bundle
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mangum import Mangum

from inteligencia.main import create_app

app = create_app()

# Mangum handler for serverless; tables are created by migrations, not at cold start
handler = Mangum(app, lifespan="off")
