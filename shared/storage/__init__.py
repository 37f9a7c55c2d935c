from .credentials import SecureStore, save_endpoint, load_endpoint, ENDPOINT_KEY

__all__ = ["SecureStore", "save_endpoint", "load_endpoint", "ENDPOINT_KEY"]
