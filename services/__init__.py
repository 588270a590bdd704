"""
Creative Video Studio Services

- video_generation: provider selection, scene chaining, polling and job records
"""
