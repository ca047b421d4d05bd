"""
Utilidades compartidas: ejecución de comandos, doctor y permisos.
"""
