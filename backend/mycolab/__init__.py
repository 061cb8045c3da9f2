"""MycoLab cultivation tracking backend."""
