"""Proxy stack: requests, responses, formatting and composable middlewares."""