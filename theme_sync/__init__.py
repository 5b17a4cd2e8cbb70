"""theme-sync: local development pipeline for Shopify-style themes.

Copies a theme's source tree into an output tree, runs the script
bundler, and keeps a remote theme in step with the output tree while
telling connected browsers to reload.
"""

__version__ = "1.0.0"
__app_name__ = "theme-sync"
