try:
    from photos_api.main import handler
except ImportError:
    # Surface the Lambda's import path when packaging went wrong
    import sys
    print(f"Path: {sys.path}")
    raise
