"""
Kubernetes API client construction for the endpoints watch.
"""
import logging
from typing import Optional

from kubernetes import client, config

from ..errors import ConfigError

log = logging.getLogger(__name__)


def build_core_v1_api(api_server: Optional[str], use_kubeconfig: bool = False) -> client.CoreV1Api:
    """
    Create a CoreV1Api for watching Endpoints.

    With ``use_kubeconfig`` the in-cluster configuration is tried first and the
    local kubeconfig second; otherwise the API server at ``api_server``
    (host:port) is used directly over plain HTTP.
    """
    if use_kubeconfig:
        try:
            config.load_incluster_config()
            log.info("Using in-cluster Kubernetes configuration.")
        except config.ConfigException:
            try:
                config.load_kube_config()
                log.info("Using local kubeconfig.")
            except config.ConfigException as e:
                raise ConfigError(f"Could not configure Kubernetes client: {e}") from e
        return client.CoreV1Api()

    if not api_server:
        raise ConfigError("api_server is required unless use_kubeconfig is set")
    configuration = client.Configuration()
    configuration.host = f"http://{api_server}"
    log.info("Using Kubernetes API server at %s.", configuration.host)
    return client.CoreV1Api(client.ApiClient(configuration))
