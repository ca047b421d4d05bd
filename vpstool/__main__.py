"""
Punto de entrada: python -m vpstool

Delega a la misma app que el script `hostplane`.
"""

from hostplane.cli.app import app

if __name__ == "__main__":
    app()
