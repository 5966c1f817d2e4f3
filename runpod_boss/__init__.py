"""
runpod_boss: brings up a RunPod GPU pod running AUTOMATIC1111 WebUI, ComfyUI,
File Browser and Ollama. A fresh workspace is provisioned and its model
folders are linked into one shared tree; then every service is supervised
until the pod is asked to stop.
"""

__version__ = "0.1.0"
