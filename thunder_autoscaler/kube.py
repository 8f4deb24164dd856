import base64
import logging

from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException

from .errors import WorkloadError
from .models import DeploymentState

logger = logging.getLogger(__name__)


def build_api_client(cluster):
    if cluster.ip:
        conf = client.Configuration()
        conf.host = f"https://{cluster.ip}:{cluster.port}"
        conf.verify_ssl = cluster.verify_ssl
        if cluster.auth_token:
            conf.api_key = {"authorization": cluster.auth_token}
            conf.api_key_prefix = {"authorization": "Bearer"}
        logger.info(f"Using cluster API at {conf.host}")
        return client.ApiClient(conf)

    try:
        k8s_config.load_incluster_config()
        logger.info("Loaded in-cluster config")
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
        logger.info("Loaded local kubeconfig")
    return client.ApiClient()


def _describe(e):
    if isinstance(e, ApiException):
        return f"{e.status} {e.reason}"
    return str(e)


class KubernetesController:
    def __init__(self, api_client=None, apps_v1=None, core_v1=None):
        self.apps_v1 = apps_v1 or client.AppsV1Api(api_client)
        self.core_v1 = core_v1 or client.CoreV1Api(api_client)

    @classmethod
    def from_settings(cls, cluster):
        try:
            api_client = build_api_client(cluster)
        except k8s_config.ConfigException as e:
            raise WorkloadError(f"no usable cluster configuration: {e}") from e
        return cls(api_client=api_client)

    def list_pods(self):
        try:
            pods = self.core_v1.list_pod_for_all_namespaces()
        except Exception as e:
            raise WorkloadError(f"cannot list pods: {_describe(e)}") from e
        return [p.metadata.name for p in pods.items]

    def get_status(self, name, namespace):
        try:
            dep = self.apps_v1.read_namespaced_deployment(name, namespace)
        except Exception as e:
            raise WorkloadError(f"cannot read deployment {namespace}/{name}: {_describe(e)}") from e

        return DeploymentState(
            name=dep.metadata.name or name,
            namespace=dep.metadata.namespace or namespace,
            current_replicas=dep.spec.replicas or 0,  # desired count, not ready pods
        )

    def set_replicas(self, name, namespace, target):
        if not name:
            raise WorkloadError("deployment name cannot be blank")
        if not namespace:
            raise WorkloadError("deployment namespace cannot be blank")

        body = {"spec": {"replicas": target}}
        try:
            scale = self.apps_v1.patch_namespaced_deployment_scale(name, namespace, body)
        except Exception as e:
            raise WorkloadError(f"cannot scale deployment {namespace}/{name}: {_describe(e)}") from e

        applied = scale.spec.replicas if scale.spec is not None else None
        if applied != target:
            raise WorkloadError(
                f"Pod replicas adjustment failed - Required: {target} Active: {applied}"
            )

    def get_secret(self, name, namespace):
        try:
            secret = self.core_v1.read_namespaced_secret(name, namespace)
        except Exception as e:
            raise WorkloadError(f"cannot read secret {namespace}/{name}: {_describe(e)}") from e

        data = secret.data or {}
        try:
            username = base64.b64decode(data["username"]).decode("utf-8")
            password = base64.b64decode(data["password"]).decode("utf-8")
        except KeyError as e:
            raise WorkloadError(f"secret {namespace}/{name} has no {e.args[0]!r} key") from e
        except (ValueError, UnicodeDecodeError) as e:
            raise WorkloadError(f"secret {namespace}/{name} is not valid base64: {e}") from e
        return username, password
