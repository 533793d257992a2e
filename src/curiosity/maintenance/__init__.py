"""Store maintenance."""
