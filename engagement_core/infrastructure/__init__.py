"""Infrastructure: repositories, collaborator clients, background tasks"""
