"""Resource names, labels and annotation formats shared across the planner."""

RESOURCE_NVIDIA_GPU = "nvidia.com/gpu"
RESOURCE_MIG_PREFIX = "nvidia.com/mig-"

LABEL_NVIDIA_PRODUCT = "nvidia.com/gpu.product"
LABEL_NVIDIA_COUNT = "nvidia.com/gpu.count"

# n8s.nebuly.ai/status-gpu-<gpu index>-<profile>-<used|free>
ANNOTATION_STATUS_PREFIX = "n8s.nebuly.ai/status-gpu-"
