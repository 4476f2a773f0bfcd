# Minimal ABI fragments, only what the gateway calls

ABI_ERC20 = [
  {"name":"decimals","outputs":[{"type":"uint8"}],"inputs":[],"stateMutability":"view","type":"function"},
  {"name":"allowance","outputs":[{"type":"uint256"}],
   "inputs":[{"type":"address","name":"owner"},{"type":"address","name":"spender"}],
   "stateMutability":"view","type":"function"},
  {"name":"approve","outputs":[{"type":"bool"}],
   "inputs":[{"type":"address","name":"spender"},{"type":"uint256","name":"amount"}],
   "stateMutability":"nonpayable","type":"function"},
]

ABI_LENDING_POOL = [
  {"name":"deposit","outputs":[],
   "inputs":[{"type":"address","name":"token"},{"type":"uint256","name":"amount"}],
   "stateMutability":"nonpayable","type":"function"},
  {"name":"withdraw","outputs":[],
   "inputs":[{"type":"address","name":"token"},{"type":"uint256","name":"amount"}],
   "stateMutability":"nonpayable","type":"function"},
  {"name":"createLoan","outputs":[{"type":"uint256","name":"loanId"}],
   "inputs":[
     {"type":"address","name":"collateralToken"},
     {"type":"address","name":"borrowToken"},
     {"type":"uint256","name":"collateralAmount"},
     {"type":"uint256","name":"borrowAmount"}],
   "stateMutability":"nonpayable","type":"function"},
  {"name":"repayLoan","outputs":[],
   "inputs":[{"type":"uint256","name":"loanId"},{"type":"uint256","name":"amount"}],
   "stateMutability":"nonpayable","type":"function"},
]

ABI_SWAP_ENGINE = [
  {"name":"getPoolByTokens","outputs":[{"type":"uint256","name":"poolId"}],
   "inputs":[{"type":"address","name":"tokenA"},{"type":"address","name":"tokenB"}],
   "stateMutability":"view","type":"function"},
  {"name":"getSwapQuote","outputs":[{"type":"uint256","name":"amountOut"},{"type":"uint256","name":"fee"}],
   "inputs":[{"type":"uint256","name":"poolId"},{"type":"address","name":"tokenIn"},{"type":"uint256","name":"amountIn"}],
   "stateMutability":"view","type":"function"},
  {"name":"swap","outputs":[{"type":"uint256","name":"amountOut"}],
   "inputs":[
     {"type":"uint256","name":"poolId"},
     {"type":"address","name":"tokenIn"},
     {"type":"uint256","name":"amountIn"},
     {"type":"uint256","name":"minAmountOut"},
     {"type":"uint256","name":"maxSlippage"}],
   "stateMutability":"nonpayable","type":"function"},
  {"name":"createPool","outputs":[{"type":"uint256","name":"poolId"}],
   "inputs":[
     {"type":"address","name":"tokenA"},
     {"type":"address","name":"tokenB"},
     {"type":"uint256","name":"amountA"},
     {"type":"uint256","name":"amountB"},
     {"type":"uint256","name":"feeRate"}],
   "stateMutability":"nonpayable","type":"function"},
  {"name":"PoolCreated","type":"event","anonymous":False,
   "inputs":[
     {"type":"uint256","name":"poolId","indexed":True},
     {"type":"address","name":"tokenA","indexed":True},
     {"type":"address","name":"tokenB","indexed":True},
     {"type":"uint256","name":"feeRate","indexed":False}]},
]
