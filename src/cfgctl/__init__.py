"""cfgctl.

Discover SSO accounts, roles and EKS clusters and generate AWS shared-config
profiles and kubeconfig entries that stay in sync across runs.
"""

__version__ = "0.1.0"
__author__ = "Platform Engineering Team"
__license__ = "Apache-2.0"
