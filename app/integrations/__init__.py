from .twilio_client import TwilioClient
from .sendgrid_client import SendGridClient
from .checkr_client import CheckrClient
from .idenfy_client import IdenfyClient

__all__ = ['TwilioClient', 'SendGridClient', 'CheckrClient', 'IdenfyClient']
