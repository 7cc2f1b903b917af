#!/usr/bin/env python3
import logging

import aws_cdk as cdk

from settings import DeploymentSettings
from topology import build_stacks

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

app = cdk.App()

# Configuration from context (-c key=value), falling back to environment variables
settings = DeploymentSettings.from_app(app)

# Deploy all:          cdk deploy --all
# Deploy by name:      cdk deploy --all -c stacks=NetworkStack,DatabaseStack
# Deploy by prefix:    cdk deploy --all -c stacks=Network*
build_stacks(app, settings)

app.synth()
