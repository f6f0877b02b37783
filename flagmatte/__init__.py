"""
flagmatte: portrait background removal and flag compositing.

Exposes reusable primitives for loading the matting model, extracting and
applying mattes, compositing over backgrounds, and serving the FastAPI app.
"""
