"""
Shared dependencies

Components are built once in `create_app` and kept on `app.state`; each
request reads exactly one configuration generation through `get_generation`.
"""
from typing import Annotated

from fastapi import Depends, Request

from oauth_gateway.core.oauth.registry import ConfigHandle, Generation
from oauth_gateway.services.drive_service import DriveFlow
from oauth_gateway.services.login_service import LoginFlow
from oauth_gateway.services.session_service import SessionBroker


def get_config_handle(request: Request) -> ConfigHandle:
    return request.app.state.config


def get_generation(request: Request) -> Generation:
    """Latest generation at the moment the request starts"""
    return request.app.state.config.current()


def get_session_broker(request: Request) -> SessionBroker:
    return request.app.state.session_broker


def get_login_flow(request: Request) -> LoginFlow:
    return request.app.state.login_flow


def get_drive_flow(request: Request) -> DriveFlow:
    return request.app.state.drive_flow


CurrentGeneration = Annotated[Generation, Depends(get_generation)]
ConfigHandleDep = Annotated[ConfigHandle, Depends(get_config_handle)]
SessionBrokerDep = Annotated[SessionBroker, Depends(get_session_broker)]
LoginFlowDep = Annotated[LoginFlow, Depends(get_login_flow)]
DriveFlowDep = Annotated[DriveFlow, Depends(get_drive_flow)]
