import os
import logging
from typing import Optional

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client import Configuration
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError, ResourceNotFoundError

from chartrender.context import Capabilities
from chartrender.exceptions import ResourceLookupError


logger = logging.getLogger(__name__)


def setup() -> k8s_client.ApiClient:
    """Setup Kubernetes client.

    Uses K8S_PROXY env var if set (dev), otherwise in-cluster config, then
    the local kubeconfig.
    """
    proxy = os.getenv("K8S_PROXY")

    if proxy:
        logger.info("Using K8S_PROXY=%s", proxy)
        config = Configuration.get_default_copy()
        config.host = proxy.rstrip("/")
        Configuration.set_default(config)
        return k8s_client.ApiClient()

    try:
        k8s_config.load_incluster_config()
        logger.info("Loaded in-cluster config")
    except k8s_config.ConfigException:
        try:
            k8s_config.load_kube_config()
            logger.info("Loaded kubeconfig")
        except Exception as e:
            logger.error("Failed to load config: %s", e)
            raise ResourceLookupError(
                "Kubernetes unavailable. Set K8S_PROXY, run in-cluster or provide a kubeconfig."
            ) from e
    return k8s_client.ApiClient()


class KubernetesLookup:
    """Resource lookup against a live cluster.

    A missing resource, or an unknown kind, is an empty mapping. An empty
    `name` returns the whole collection (a `...List` object).
    """

    def __init__(self, api_client: Optional[k8s_client.ApiClient] = None):
        self._api_client = api_client
        self._dynamic: Optional[DynamicClient] = None

    @property
    def dynamic(self) -> DynamicClient:
        if self._dynamic is None:
            self._dynamic = DynamicClient(self._api_client or setup())
        return self._dynamic

    def lookup(self, api_version: str, kind: str, namespace: str, name: str) -> dict:
        try:
            resource = self.dynamic.resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError:
            logger.debug("No resource %s in %s", kind, api_version)
            return {}

        kwargs = {}
        if name:
            kwargs["name"] = name
        if namespace and resource.namespaced:
            kwargs["namespace"] = namespace

        try:
            result = resource.get(**kwargs)
        except NotFoundError:
            return {}
        except Exception as e:
            raise ResourceLookupError(
                f"lookup of {kind} {namespace}/{name} failed: {e}"
            ) from e
        return result.to_dict()


def discover_capabilities(api_client: k8s_client.ApiClient) -> Capabilities:
    """Query the cluster version and served API versions."""
    try:
        version = k8s_client.VersionApi(api_client).get_code().git_version
        groups = k8s_client.ApisApi(api_client).get_api_versions().groups or []
    except Exception as e:
        logger.warning("Cannot discover cluster capabilities: %s", e)
        return Capabilities()

    api_versions = {"v1"}
    for group in groups:
        for v in group.versions or []:
            api_versions.add(v.group_version)
    return Capabilities(kube_version=version, api_versions=frozenset(api_versions))


__all__ = ["setup", "KubernetesLookup", "discover_capabilities"]
