"""Identity recognition and emotion scoring collaborators."""
