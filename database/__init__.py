"""PostgreSQL persistence for the statement selection engine"""
