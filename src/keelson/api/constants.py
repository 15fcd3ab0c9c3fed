"""Label, annotation, finalizer, condition and reason constants."""

# Base domain; every key owned by the operator is prefixed with it.
BASE_DOMAIN = "openmcp.cloud"

OPERATION_ANNOTATION = f"{BASE_DOMAIN}/operation"
OPERATION_RECONCILE = "reconcile"
OPERATION_IGNORE = "ignore"

# Back-references to the creating ManagedControlPlane, in case its status is lost.
MCP_NAME_LABEL = f"{BASE_DOMAIN}/mcp-name"
MCP_NAMESPACE_LABEL = f"{BASE_DOMAIN}/mcp-namespace"

# Created-from generations, used to detect outdated component resources.
MCP_GENERATION_LABEL = f"{BASE_DOMAIN}/mcp-generation"
IC_GENERATION_LABEL = f"{BASE_DOMAIN}/ic-generation"

DEPENDENCY_FINALIZER_PREFIX = f"dependency.{BASE_DOMAIN}/"

MCP_DOMAIN = f"managedcontrolplane.{BASE_DOMAIN}"
MCP_FINALIZER = f"finalizer.{MCP_DOMAIN}"

# Conditions
CONDITION_MCP_SUCCESSFUL = "MCPSuccessful"

# General reasons
REASON_NO_CONDITIONS = "NoConditions"
REASON_DELETION_WAITING_FOR_DEPENDING_COMPONENTS = "DeletionWaitingForDependingComponents"
REASON_WAITING_FOR_DEPENDENCIES = "WaitingForDependencies"
REASON_DEPENDENCY_STATUS_INVALID = "DependencyStatusInvalid"
REASON_COMPONENT_IS_IN_DELETION = "ComponentIsInDeletion"
REASON_CRATE_CLUSTER_INTERACTION_PROBLEM = "CrateClusterInteractionProblem"
REASON_RECONCILIATION_ERROR = "ReconciliationError"
REASON_MISSING_EXPECTED_CONDITION = "MissingExpectedCondition"

# ManagedControlPlane reasons
REASON_ALL_COMPONENTS_RECONCILED = "AllComponentsReconciledSuccessfully"
REASON_NOT_ALL_COMPONENTS_RECONCILED = "NotAllComponentsReconciledSuccessfully"

# General messages
MESSAGE_COMPONENT_IS_IN_DELETION = "This component is being deleted."
MESSAGE_RECONCILIATION_ERROR = "An error occurred during reconciliation."
MESSAGE_NO_CONDITIONS = "This component does not expose any conditions."
MESSAGE_MISSING_EXPECTED_CONDITION = "The component did not expose this condition."

# Roles whose aggregation rules components may contribute to.
ADMIN_NAMESPACE_SCOPE_ROLE = "openmcp:admin"
ADMIN_CLUSTER_SCOPE_ROLE = "openmcp:admin:clusterscoped"
ADMIN_NAMESPACE_SCOPE_STANDARD_RULES_ROLE = "openmcp:aggregate-to-admin"
ADMIN_CLUSTER_SCOPE_STANDARD_RULES_ROLE = "openmcp:clusterscoped:aggregate-to-admin"
VIEW_NAMESPACE_SCOPE_ROLE = "openmcp:view"
VIEW_CLUSTER_SCOPE_ROLE = "openmcp:view:clusterscoped"
VIEW_NAMESPACE_SCOPE_STANDARD_RULES_ROLE = "openmcp:aggregate-to-view"
VIEW_CLUSTER_SCOPE_STANDARD_RULES_ROLE = "openmcp:clusterscoped:aggregate-to-view"

ADMIN_ROLES = frozenset(
    {
        ADMIN_NAMESPACE_SCOPE_ROLE,
        ADMIN_CLUSTER_SCOPE_ROLE,
        ADMIN_NAMESPACE_SCOPE_STANDARD_RULES_ROLE,
        ADMIN_CLUSTER_SCOPE_STANDARD_RULES_ROLE,
    }
)
CLUSTER_SCOPED_ROLES = frozenset(
    {
        ADMIN_CLUSTER_SCOPE_ROLE,
        ADMIN_CLUSTER_SCOPE_STANDARD_RULES_ROLE,
        VIEW_CLUSTER_SCOPE_ROLE,
        VIEW_CLUSTER_SCOPE_STANDARD_RULES_ROLE,
    }
)


def is_admin_role(role_name: str) -> bool:
    return role_name in ADMIN_ROLES


def is_cluster_scoped_role(role_name: str) -> bool:
    return role_name in CLUSTER_SCOPED_ROLES


def is_operator_key(key: str) -> bool:
    """Whether a label/annotation key belongs to the operator's base domain."""
    return key.startswith(BASE_DOMAIN)
