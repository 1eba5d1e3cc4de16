"""Read-only query selectors."""

from provisioning_kernel.selectors.base import BaseSelector
from provisioning_kernel.selectors.provisioning_selector import ProvisioningSelector

__all__ = ["BaseSelector", "ProvisioningSelector"]
