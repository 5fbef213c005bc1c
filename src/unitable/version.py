# src/unitable/version.py
VERSION = "0.4.0"
