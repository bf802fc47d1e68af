"""Names, paths, endpoints and defaults shared across the orchestrator."""

# -- Naming convention --
CONTROL_PLANE_NAME = "control-plane"
WORKER_PREFIX = "worker"
WORKER_NAME_PATTERN = r"^worker(\d+)$"

# -- VM sizing defaults --
DEFAULT_CPU = 2
DEFAULT_MEMORY = "2G"
DEFAULT_DISK = "10G"
SIZE_PATTERN = r"^\d+[KMG]?$"

# -- Orchestrator defaults --
DEFAULT_CREDENTIAL_WAIT_TIMEOUT = 600.0
DEFAULT_CREDENTIAL_POLL_INTERVAL = 2.0
DEFAULT_EXEC_TIMEOUT = 1800
DEFAULT_MAX_PARALLEL = 8
DEFAULT_CALICO_CIDR = "10.100.0.0/16"

# -- Remote user on Ubuntu images --
REMOTE_HOME = "/home/ubuntu"

# -- API server --
API_SERVER_PORT = 6443
CONTROL_PLANE_TAINT = "node-role.kubernetes.io/control-plane"

# -- kubeadm --
KUBEADM_DEFAULT_VERSION = "1.25.2"
KUBEADM_MASTER_SCRIPT_URL = "https://luc.run/kubeadm/master.sh"
KUBEADM_WORKER_SCRIPT_URL = "https://luc.run/kubeadm/worker.sh"
KUBEADM_ADMIN_CONF = "/etc/kubernetes/admin.conf"
KUBEADM_KUBECONFIG_FILE = "kubeconfig.cfg"

# -- k3s --
K3S_INSTALL_URL = "https://get.k3s.io"
K3S_ADMIN_CONF = "/etc/rancher/k3s/k3s.yaml"
K3S_NODE_TOKEN = "/var/lib/rancher/k3s/server/node-token"
K3S_KUBECONFIG_FILE = "kubeconfig.k3s"

# -- k0s --
K0S_DEFAULT_VERSION = "v1.25.2+k0s.0"
K0S_INSTALL_URL = "https://get.k0s.sh"
K0S_CONFIG_PATH = "/etc/k0s/k0s.yaml"
K0S_ADMIN_CONF = "/var/lib/k0s/pki/admin.conf"
K0S_KUBECONFIG_FILE = "kubeconfig.k0s"
K0S_TOKEN_FILE = "token.k0s"

# -- Network plugins --
WEAVENET_MANIFEST_URL = (
    "https://github.com/weaveworks/weave/releases/download/v2.8.1/weave-daemonset-k8s-1.11.yaml"
)
CALICO_VERSION = "v3.24.1"
CALICO_OPERATOR_URL = (
    f"https://raw.githubusercontent.com/projectcalico/calico/{CALICO_VERSION}"
    "/manifests/tigera-operator.yaml"
)
CALICO_CUSTOM_RESOURCES_URL = (
    f"https://raw.githubusercontent.com/projectcalico/calico/{CALICO_VERSION}"
    "/manifests/custom-resources.yaml"
)
CILIUM_CLI_RELEASE_URL = "https://github.com/cilium/cilium-cli/releases/latest/download"

# -- Local artifacts removed on teardown --
LOCAL_ARTIFACTS = (
    KUBEADM_KUBECONFIG_FILE,
    K3S_KUBECONFIG_FILE,
    f"{K3S_KUBECONFIG_FILE}.local",
    K0S_KUBECONFIG_FILE,
    f"{K0S_KUBECONFIG_FILE}.local",
    K0S_TOKEN_FILE,
)
