from azure.identity.aio import DefaultAzureCredential

from family_reminders.helpers.cache import lru_acache


@lru_acache()
async def credential() -> DefaultAzureCredential:
    """
    Get the Azure credential, shared by all the Azure SDK clients of the event loop.
    """
    return DefaultAzureCredential()
