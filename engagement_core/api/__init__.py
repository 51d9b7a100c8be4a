"""HTTP API: callable operations and event ingestion"""
