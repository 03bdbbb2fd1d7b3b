"""
Imagery: raster basemap tiles

- fetcher: TileFetcher, per-tile futures over requests, decoded with OpenCV
- tile_cache: on-disk {z}/{x}/{y}.png cache consulted before the network
- server: FastAPI app (/health, /compose, /tiles/{z}/{x}/{y}.png)

Run the API:
    python -m imagery.server
"""
