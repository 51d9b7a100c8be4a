"""Application wiring: configuration, database, HTTP app"""
