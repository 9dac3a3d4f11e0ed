"""
Domain event emission: recipient resolution, actor projection, fan-out.
"""
