"""HTTP routers that serve configured endpoints through their proxy stacks."""