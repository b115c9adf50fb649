from chupgrade.core.plan import StageDefinition

PREPARE_STAGES = (
    StageDefinition("uninstall_legacy_modules", per_site=True, label="Uninstall legacy modules"),
    StageDefinition("install_depcalc", per_site=True, label="Install depcalc"),
    StageDefinition("print_webhooks", per_site=False, label="Print webhooks"),
    StageDefinition("purge_subscription", per_site=False, label="Purge subscription"),
)

UPGRADE_STAGES = (
    StageDefinition("remove_rest_resource", per_site=True, label="Remove REST resource"),
    StageDefinition("update_databases", per_site=True, label="Update databases"),
    StageDefinition("upgrade_publishers", per_site=True, label="Upgrade publishers", gate="publisher"),
    StageDefinition("upgrade_subscribers", per_site=True, label="Upgrade subscribers"),
)

LIFT_SUPPORT_STAGE = StageDefinition(
    "install_lift_support", per_site=True, label="Install Lift support"
)
LIFT_SUPPORT_POSITION = 2

# Orchestration-level steps reported around the plan itself.
COMMAND_STEPS = [
    ("discover_sites", "Discover sites"),
    ("build_plan", "Build plan"),
    ("load_checkpoint", "Load checkpoint"),
    ("execute_plan", "Execute plan"),
    ("clear_checkpoint", "Clear checkpoint"),
]


STAGE_ORDER = {
    "prepare": PREPARE_STAGES,
    "upgrade": UPGRADE_STAGES,
}


STAGE_LABELS = {
    stage.name: stage.title
    for stages in (*STAGE_ORDER.values(), (LIFT_SUPPORT_STAGE,))
    for stage in stages
}
