"""kmirror: mirror local directories into containers running on Kubernetes nodes."""
