from __future__ import annotations

# botocore client settings (every AWS call)
AWS_CONNECT_TIMEOUT_SECONDS = 10.0
AWS_READ_TIMEOUT_SECONDS = 60.0
AWS_MAX_ATTEMPTS = 5

# Artifact upload (zip bodies can be large)
S3_UPLOAD_READ_TIMEOUT_SECONDS = 5 * 60.0

# CloudFormation waiters: delay * attempts bounds each wait
CHANGE_SET_WAIT_DELAY_SECONDS = 5
CHANGE_SET_WAIT_MAX_ATTEMPTS = 120
STACK_WAIT_DELAY_SECONDS = 15
STACK_WAIT_MAX_ATTEMPTS = 240

# Lambda waits for a code update to finish before an alias can move
FUNCTION_UPDATE_WAIT_DELAY_SECONDS = 2
FUNCTION_UPDATE_WAIT_MAX_ATTEMPTS = 150
