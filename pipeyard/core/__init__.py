"""Core configuration, database, logging and security"""
