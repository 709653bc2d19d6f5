from typing import Dict, Optional


class URI:
    """ Well-known capability URIs. """
    CORE = "urn:ietf:params:jmap:core"
    MAIL = "urn:ietf:params:jmap:mail"
    SUBMISSION = "urn:ietf:params:jmap:submission"
    VACATION_RESPONSE = "urn:ietf:params:jmap:vacationresponse"
    CONTACTS = "urn:ietf:params:jmap:contacts"
    CALENDARS = "urn:ietf:params:jmap:calendars"
    WEBSOCKET = "urn:ietf:params:jmap:websocket"
    SIEVE = "urn:ietf:params:jmap:sieve"


METHOD_CAPABILITIES: Dict[str, str] = {
    "Mailbox": URI.MAIL,
    "Thread": URI.MAIL,
    "Email": URI.MAIL,
    "SearchSnippet": URI.MAIL,
    "Identity": URI.SUBMISSION,
    "EmailSubmission": URI.SUBMISSION,
    "VacationResponse": URI.VACATION_RESPONSE,
    "SieveScript": URI.SIEVE,
}
""" Maps the data-type part of a method name (`Email` in `Email/query`) to the capability
    a request has to declare in `using` to call it. Core methods (`Core`, `Blob`,
    `PushSubscription`) are left out, core is always declared.

    Domain modules can add to this for extensions we don't know about.
"""


def capability_for_method(method_name: str) -> Optional[str]:
    """ Capability needed for `method_name`, or None if we don't know it (core is implied). """
    data_type = method_name.split("/", 1)[0]
    return METHOD_CAPABILITIES.get(data_type)
