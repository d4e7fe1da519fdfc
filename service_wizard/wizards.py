"""
Wizard definitions for Service Wizard Bot

Each service type gets one WizardDefinition: its ordered steps, the webhook
route the completed record is posted to, and the summary shown to the user.
"""

from functools import partial
from typing import Any, Dict

from service_wizard.models import Choice, FieldKind, FieldSpec, ValidatorTag, WizardDefinition
from service_wizard.validation import apply_domain_suffix


DNS_SERVICE_TYPE = "dns"
DASHBOARD_SERVICE_TYPE = "dashboard"

DNS_WEBHOOK_ROUTE = "/webhook/add-service/dns"
DASHBOARD_WEBHOOK_ROUTE = "/webhook/add-service/dashboard"


def _format_summary(label: str, rows: Dict[str, Any]) -> str:
    lines = [
        "✅ Service added successfully!",
        "",
        "📋 Summary:",
        f"Service Type: {label}",
    ]
    lines.extend(f"{title}: {value}" for title, value in rows.items())
    return "\n".join(lines)


def format_dns_summary(data: Dict[str, Any]) -> str:
    return _format_summary("DNS", {
        "Name": data.get("name"),
        "Host": data.get("host"),
        "IP": data.get("ip"),
        "Protocol": data.get("protocol"),
        "Policy": data.get("policy"),
        "Port": data.get("port"),
    })


def format_dashboard_summary(data: Dict[str, Any]) -> str:
    return _format_summary("Dashboard", {
        "Name": data.get("name"),
        "Host": data.get("host"),
        "Group": data.get("group"),
        "Sub-group": data.get("sub_group"),
        "Icon": data.get("icon"),
    })


def build_dns_wizard(host_suffix: str) -> WizardDefinition:
    """
    DNS entry wizard.

    The host step appends ``host_suffix`` to whatever the user types unless
    it is already there.
    """
    return WizardDefinition(
        service_type=DNS_SERVICE_TYPE,
        display_name="Add Service to DNS",
        webhook_route=DNS_WEBHOOK_ROUTE,
        summary_template=format_dns_summary,
        fields=(
            FieldSpec(
                key="name",
                prompt="Please provide the service name:",
                validator=ValidatorTag.NON_EMPTY_TEXT,
            ),
            FieldSpec(
                key="host",
                prompt=f"Provide the hostname without the {host_suffix} suffix (e.g., test):",
                validator=ValidatorTag.NON_EMPTY_TEXT,
                post_process=partial(apply_domain_suffix, suffix=host_suffix),
            ),
            FieldSpec(
                key="ip",
                prompt="What is the IP address of the service (e.g., 192.168.1.100)?",
                validator=ValidatorTag.IP_ADDRESS,
            ),
            FieldSpec(
                key="protocol",
                prompt="Choose the protocol for the service URL:",
                kind=FieldKind.FIXED_CHOICE,
                choices=(
                    Choice(label="HTTP", token="protocol_http", value="http"),
                    Choice(label="HTTPS", token="protocol_https", value="https"),
                ),
            ),
            FieldSpec(
                key="policy",
                prompt="Choose the policy (determines entryPoints):",
                kind=FieldKind.FIXED_CHOICE,
                choices=(
                    Choice(label="internal", token="policy_internal", value="internal"),
                    Choice(label="External", token="policy_external", value="external"),
                ),
            ),
            FieldSpec(
                key="port",
                prompt="Finally, what port number?",
                validator=ValidatorTag.PORT_NUMBER,
            ),
        ),
    )


def build_dashboard_wizard() -> WizardDefinition:
    """Dashboard tile wizard"""
    return WizardDefinition(
        service_type=DASHBOARD_SERVICE_TYPE,
        display_name="Add Service to Dashboard",
        webhook_route=DASHBOARD_WEBHOOK_ROUTE,
        summary_template=format_dashboard_summary,
        fields=(
            FieldSpec(
                key="name",
                prompt="Please provide the service name:",
                validator=ValidatorTag.NON_EMPTY_TEXT,
            ),
            FieldSpec(
                key="host",
                prompt="Now provide the host (e.g., api.example.com):",
                validator=ValidatorTag.NON_EMPTY_TEXT,
            ),
            FieldSpec(
                key="group",
                prompt="What group does this service belong to?",
                kind=FieldKind.FIXED_CHOICE,
                choices=(
                    Choice(label="Homelab", token="group_homelab", value="Homelab"),
                    Choice(label="Media", token="group_media_services", value="Media Services"),
                ),
            ),
            FieldSpec(
                key="sub_group",
                prompt="What sub-group?",
                validator=ValidatorTag.NON_EMPTY_TEXT,
            ),
            FieldSpec(
                key="icon",
                prompt="Provide an icon (emoji or identifier):",
                validator=ValidatorTag.NON_EMPTY_TEXT,
            ),
        ),
    )
