"""
vpstool: lado host de hostplane.

Handlers apt/systemd/ufw/archivos/usuarios, recetas de aprovisionamiento de
VPS, planes YAML y salida rich.
"""
