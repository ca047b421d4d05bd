"""
CLI de hostplane (typer).
"""
