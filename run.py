#!/usr/bin/env python3
"""
Main entry point for running the MatchScreen screening service
"""

from app.main import create_app
import os

if __name__ == '__main__':
    # Set environment
    os.environ.setdefault('FLASK_ENV', 'development')

    # Create and run app
    app = create_app(os.environ.get('FLASK_ENV', 'default'))

    print("Starting MatchScreen...")
    print("Webhooks at: http://localhost:5001/api/webhooks/idenfy and /api/webhooks/checkr")
    print("\nPress CTRL+C to stop the server")

    app.run(
        host='0.0.0.0',
        port=5001,
        debug=True
    )
