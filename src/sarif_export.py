import json
from typing import Dict, Any, List

from patterns_registry import PatternRegistry

import config


def export_to_sarif(report: Dict[str, Any], output_file: str = "results.sarif") -> str:
    """Exports the theme findings of a scan report to a SARIF file"""

    sarif = {
        "$schema": "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json",
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "AntiVirus-Theme-Scanner",
                        "informationUri": "http://wpantivirus.com",
                        "version": config.CLIENT_VERSION,
                        "rules": _generate_rules(report),
                    }
                },
                "results": _generate_results(report),
            }
        ],
    }

    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(sarif, f, indent=2)

    return output_file


def _generate_rules(report: Dict[str, Any]) -> List[Dict]:
    """Function to generate SARIF rule definitions for the rules that produced findings

    Descriptions come from the default PatternRegistry, unknown rule ids get a generic text.
    """

    descriptions = {rule.name: rule.description for rule in PatternRegistry().get_rules()}
    rule_ids = sorted({f.get("rule_id", "unknown") for f in report.get("findings", [])})

    rules = []
    for rule_id in rule_ids:
        description = descriptions.get(rule_id, f"Suspicious {rule_id.replace('_', ' ')}")
        rules.append(
            {
                "id": rule_id,
                "name": rule_id.replace("_", " ").title(),
                "shortDescription": {"text": description},
                "help": {
                    "text": "Review the line. If it is harmless, accept it into the whitelist."
                },
                "defaultConfiguration": {"level": "error"},
                "properties": {"tags": ["security", "malware"], "precision": "medium"},
            }
        )

    return rules


def _generate_results(report: Dict[str, Any]) -> List[Dict]:
    """Generate a list of SARIF result objects from the theme findings

    Each result includes:
     - rule reference
     - message with the highlighted line
     - location details
     - the whitelist fingerprint
     - a suppression entry for whitelisted findings
    """
    results = []

    for finding in report.get("findings", []):
        result = {
            "ruleId": finding.get("rule_id", "unknown"),
            "level": "note" if finding.get("suppressed") else "error",
            "message": {"text": finding.get("matched_text", "")},
            "locations": [
                {
                    "physicalLocation": {
                        "artifactLocation": {
                            "uri": finding.get("file_path", "unknown").lstrip("/"),
                            "uriBaseId": "WP_CONTENT",
                        },
                        "region": {"startLine": finding.get("line_number", 1)},
                    }
                }
            ],
            "partialFingerprints": {"whitelistFingerprint": finding.get("fingerprint", "")},
        }
        if finding.get("suppressed"):
            result["suppressions"] = [{"kind": "external", "justification": "whitelisted"}]
        results.append(result)

    return results
